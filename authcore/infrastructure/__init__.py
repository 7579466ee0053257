"""
Infrastructure layer.

Concrete implementations of the application interfaces: SQLAlchemy
persistence, SMTP email delivery, and the FastAPI authentication surface.
"""
