"""Network - proxy rotation"""

from .proxy_rotator import ProxyProfile, ProxyRotator, build_provider_profiles, extract_subnet

__all__ = [
    'ProxyProfile',
    'ProxyRotator',
    'build_provider_profiles',
    'extract_subnet',
]
