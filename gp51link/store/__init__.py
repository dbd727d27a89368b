"""Supabase persistence for GP51 sessions and health metrics."""

from gp51link.store.supabase import SupabaseStore
from gp51link.store.types import AuthSession, AuthUser, GP51Session, HealthMetric

__all__ = ["SupabaseStore", "AuthSession", "AuthUser", "GP51Session", "HealthMetric"]
