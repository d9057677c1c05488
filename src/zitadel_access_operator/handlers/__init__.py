"""
Handlers package - Contains the kopf event handlers.

- secured_application.py: SecuredApplication create, update, resume, delete
  and periodic resync
"""
