"""FastAPI dependency injection helpers."""

from fastapi import Depends, Request

from ridehail.services.container import Services
from ridehail.services.drivers import DriverService
from ridehail.services.earnings import EarningsSync
from ridehail.services.lifecycle import TripLifecycle
from ridehail.services.matching import MatchingEngine


def get_services(request: Request) -> Services:
    """The service container built by ``create_app``."""
    return request.app.state.services


def get_matching(services: Services = Depends(get_services)) -> MatchingEngine:
    return services.matching


def get_lifecycle(services: Services = Depends(get_services)) -> TripLifecycle:
    return services.lifecycle


def get_earnings(services: Services = Depends(get_services)) -> EarningsSync:
    return services.earnings


def get_drivers(services: Services = Depends(get_services)) -> DriverService:
    return services.drivers
