"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints. Import services from their modules
(e.g. ``from services.invitation_service import InvitationService``); the
package itself stays import-free so auth dependencies can load the JWT
service without pulling in every service.
"""
