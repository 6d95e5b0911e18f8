from votebot.platform.base import (
    ErrorReporter,
    MembershipProvider,
    Platform,
    PlatformError,
    PlatformMutation,
    PlatformQuery,
    SourceFileProvider,
    is_bot_login,
    is_own_login,
)

__all__ = [
    "ErrorReporter",
    "MembershipProvider",
    "Platform",
    "PlatformError",
    "PlatformMutation",
    "PlatformQuery",
    "SourceFileProvider",
    "is_bot_login",
    "is_own_login",
]
