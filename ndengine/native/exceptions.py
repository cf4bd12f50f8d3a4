# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Exceptions raised while resolving, fetching and loading native engines.

All of them are fatal for engine initialization. They propagate to the
caller of `load_library`; nothing in this package catches and retries.
"""


class NativeEngineError(Exception):
    """Base for all native engine errors."""


class InvalidVersionFormatError(NativeEngineError, ValueError):
    """Raised when a version string doesn't match MAJOR.MINOR.PATCH[-label][-SNAPSHOT][-N]."""


class UnsupportedPlatformError(NativeEngineError):
    """Raised when no native artifact exists for this OS/arch under any fallback flavor."""


class DownloadFailedError(NativeEngineError):
    """Raised when the manifest or an artifact cannot be fetched or extracted."""


class BridgeVersionError(NativeEngineError):
    """Raised when a bundled bridge properties file carries no jni_version."""


class NativeLoadError(NativeEngineError):
    """Raised when a required library is missing or the dynamic linker rejects it."""
