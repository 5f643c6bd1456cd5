"""
Offline cache service package.

A read-through cache for entities requested by identifier. Cached entities
are served from local storage at once; missing ones are fetched from the
remote source only while it is reachable, then written back with a time to
live so stale data is purged periodically.

Structure:
- app.models: CacheEntry and the EntityKind descriptor.
- app.storage: Storage backends and per-kind partitions.
- app.connectivity: Reachability monitor and probes.
- app.adapters: HTTP fetcher for the remote source.
- app.sweeper: Throttled expiration purge.
- app.reconciler: The per-kind read-through service.
- app.listings: The listing entity kind.
- app.manager: Wiring of several kinds over one backend.
"""
