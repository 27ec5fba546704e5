"""Upload pipeline: configuration, storage-node client, scheduler and orchestrator."""
