from services.redis import RedisClient


class SystemRoutesManager:
    def __init__(self):
        self.cache = None

    def get_cache(self) -> RedisClient:
        if self.cache is None:
            self.cache = RedisClient()
        return self.cache
