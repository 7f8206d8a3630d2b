"""Provider adapters and input loaders."""
