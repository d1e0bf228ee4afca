import logging

from devwp.system.shell import DOCKER_BIN, run_command

logger = logging.getLogger(__name__)

REDIS_CONTAINER = "devwp_redis"

# KEYS + DEL on the server side, no shell pipes needed
CLEAR_KEYS_SCRIPT = (
    "local keys = redis.call('KEYS', ARGV[1]); "
    "if #keys > 0 then return redis.call('DEL', unpack(keys)) else return 0 end"
)


class RedisManager:
    def __init__(self, runner=run_command, container: str = REDIS_CONTAINER):
        self.runner = runner
        self.container = container

    async def clear_site_cache(self, domain: str) -> int:
        result = await self.runner(
            [DOCKER_BIN, "exec", self.container, "redis-cli", "EVAL", CLEAR_KEYS_SCRIPT, "0", f"*{domain}*"]
        )
        output = result.stdout.strip()
        deleted = int(output) if output.isdigit() else 0
        logger.info("Cleared Redis cache for %s (%s keys)", domain, deleted)
        return deleted
