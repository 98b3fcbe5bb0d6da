"""
Services package for Live TV Service

This package contains all business logic and service layer components.
"""
from app.services.entitlement_service import EntitlementManager, TrialCountdown
from app.services.fetch_coordinator import FetchCoordinator
from app.services.guide_loader_service import GuideLoader
from app.services.license_service import derive_license_key
from app.services.m3u_parser_service import parse_m3u
from app.services.payment_service import PaymentCompletionService
from app.services.playlist_store_service import PlaylistStore
from app.services.schedule_index_service import now_next, upcoming_programmes
from app.services.scheduler_service import license_scheduler
from app.services.webhook_service import parse_webhook_event
from app.services.xmltv_parser_service import parse_xmltv, parse_xmltv_async

__all__ = [
    'EntitlementManager',
    'TrialCountdown',
    'FetchCoordinator',
    'GuideLoader',
    'derive_license_key',
    'parse_m3u',
    'PaymentCompletionService',
    'PlaylistStore',
    'now_next',
    'upcoming_programmes',
    'license_scheduler',
    'parse_webhook_event',
    'parse_xmltv',
    'parse_xmltv_async',
]
