"""
Tests d'intégration de la couche de persistance.

Chaque scénario s'exécute sur l'adaptateur local (SQLite en mémoire) et
sur l'adaptateur distant (émulateur PostgREST), via la même façade.
"""
