"""
Feature Flags Configuration

Centralized feature flag management for the ladder backend.
All feature flags are loaded from environment variables.
"""
import os


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the application.

    Flags are read at call time so tests can toggle them with monkeypatch.setenv.
    """

    @staticmethod
    def public_registration() -> bool:
        """Public apply/withdraw endpoints."""
        return get_bool_env('FEATURE_PUBLIC_REGISTRATION', True)

    @staticmethod
    def rate_limit() -> bool:
        return get_bool_env('FEATURE_RATE_LIMIT', True)

    @classmethod
    def get_all_flags(cls) -> dict:
        return {
            'FEATURE_PUBLIC_REGISTRATION': cls.public_registration(),
            'FEATURE_RATE_LIMIT': cls.rate_limit(),
        }
