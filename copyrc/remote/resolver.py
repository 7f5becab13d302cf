"""Provider resolver: maps provider names from the config to implementations.

Callers build a resolver and hand it to whatever needs providers::

    resolver = ProviderResolver({"local": LocalProvider(base_dir)})
    provider = resolver.resolve(repo_config.provider)
"""

from __future__ import annotations

from pathlib import Path

from copyrc.remote.base import Provider
from copyrc.state.errors import NotFoundError


class ProviderResolver:
    """An explicit name -> provider mapping."""

    def __init__(self, providers: dict[str, Provider] | None = None):
        self._providers: dict[str, Provider] = dict(providers or {})

    def register(self, name: str, provider: Provider) -> None:
        self._providers[name] = provider

    def resolve(self, name: str) -> Provider:
        try:
            return self._providers[name]
        except KeyError:
            known = ", ".join(sorted(self._providers)) or "none"
            raise NotFoundError(
                f"unknown provider '{name}' (registered: {known})", op="resolve_provider"
            ) from None

    def names(self) -> list[str]:
        return sorted(self._providers)

    def close(self) -> None:
        """Release provider resources such as temporary clones."""
        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if callable(close):
                close()


def default_resolver(base_dir: str | Path) -> ProviderResolver:
    """Resolver with the built-in local and git providers.

    Relative ``source`` paths in the config are resolved against ``base_dir``.
    """
    from copyrc.remote.git import GitProvider
    from copyrc.remote.local import LocalProvider

    return ProviderResolver(
        {
            "local": LocalProvider(base_dir),
            "git": GitProvider(base_dir),
        }
    )
