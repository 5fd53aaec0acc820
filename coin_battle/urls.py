from django.urls import path, include

urlpatterns = [
    path("", include("arena.urls")),          # API lives under /api/ inside arena.urls
]
