"""
Provider registry: one adapter instance per known provider id.

Adapters whose credentials are missing are still listed so that a request
naming them gets a clear "not configured" answer instead of "unknown".
"""

from typing import Dict

from songcheck.integrations.aiornot import AiOrNotAdapter
from songcheck.integrations.base import ProviderAdapter
from songcheck.integrations.cyanite import CyaniteAdapter
from songcheck.integrations.hive import HiveAdapter
from songcheck.integrations.ircam import IrcamAdapter
from songcheck.integrations.shlabs import ShLabsAdapter
from songcheck.integrations.sightengine import SightengineAdapter
from songcheck.integrations.token_cache import TokenCache, token_cache


def build_adapters(tokens: TokenCache = token_cache) -> Dict[str, ProviderAdapter]:
    adapters = [
        AiOrNotAdapter(),
        IrcamAdapter(tokens),
        CyaniteAdapter(),
        HiveAdapter(),
        ShLabsAdapter(),
        SightengineAdapter(),
    ]
    return {a.provider_id: a for a in adapters}
