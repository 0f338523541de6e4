"""
Dependency injection for the application
"""

from fastapi import Request, Depends

from ..domains.matching.services.matching_service import MatchingService
from ..domains.matching.services.query_service import QueryService
from ..domains.registry.services.registration_service import RegistrationService


async def get_service_context(request: Request):
    """Get the service context built during application startup"""
    return request.app.state.context


# Service dependencies
async def get_registration_service(context=Depends(get_service_context)) -> RegistrationService:
    """Get registration service instance"""
    return context.registration_service


async def get_matching_service(context=Depends(get_service_context)) -> MatchingService:
    """Get matching service instance"""
    return context.matching_service


async def get_query_service(context=Depends(get_service_context)) -> QueryService:
    """Get query service instance"""
    return context.query_service
