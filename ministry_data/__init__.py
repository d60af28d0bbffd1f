"""Couche de persistance canonique pour la gestion des ministeres et des foyers."""

__version__ = "0.1.0"
