"""Remote sources: where copied files come from.

Providers are looked up through an explicit ``ProviderResolver`` that the
caller builds and passes in; there is no module-level registry.
"""
