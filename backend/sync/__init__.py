"""
Offline-first sync engine.

Modules:
    events: explicit notification channel (EventBus, typed events)
    config: SyncClientConfig passed to every engine component
    retry: error classification and trigger-level backoff
    conflict_resolver: last-writer-wins resolution
    outbound_queue: durable queue entry lifecycle
    connectivity: connectivity/lifecycle trigger source
    coordinator: flush cycles (drain, pull, resolve, watermark)
    migration: initial upload of pre-existing local data
    recovery: profile name + PIN registration and restore
    service: wiring facade used by the API and the CLI
"""
