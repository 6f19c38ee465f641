from linkguard.dao.redis.redis_key_schema import RedisKeySchema
from linkguard.dao.redis.mixins import RedisClientMixin
from linkguard.dao.redis.link_redis_dao import LinkRedisDAO


__all__ = [
    'RedisKeySchema',
    'RedisClientMixin',
    'LinkRedisDAO',
]
