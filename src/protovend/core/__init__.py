"""Protovend core: manifest and lockfile stores, repository cache, and the
vendoring engine that reconciles them."""
