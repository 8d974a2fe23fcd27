"""JSON API blueprints, registered under ``/api/v1``."""
