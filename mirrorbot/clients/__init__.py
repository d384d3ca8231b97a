from mirrorbot.clients.data_api import DataApiClient, DataApiError

__all__ = ["DataApiClient", "DataApiError"]
