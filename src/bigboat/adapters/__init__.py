# External interface adapters
