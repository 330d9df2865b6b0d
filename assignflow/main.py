from assignflow.api.main import app

__all__ = ["app"]
