"""Central registry for Redis Lua scripts used by the relay repositories.

Scripts are registered at application startup (SCRIPT LOAD) and run by
name with EVALSHA. Each returns ``{code, payload}``:

    - 0: Conflict/exists - nothing was written. The payload is the current
         stored JSON so the caller can see who won.

    - 1: Success saved - the payload is the JSON that was written.

    - 2: Missing - the entity key does not exist. The payload is empty.
"""

RELAY_SCRIPTS = {
    # KEYS[1] entity key; ARGV[1] expected version; ARGV[2] new JSON
    "save_if_version": """
        local entity_key = KEYS[1]
        local expected_version = tonumber(ARGV[1])
        local new_val = ARGV[2]

        local current_raw = redis.call('GET', entity_key)
        if not current_raw then
            return {2, ''}
        end

        local current = cjson.decode(current_raw)
        local current_version = tonumber(current.version) or 0
        if current_version ~= expected_version then
            return {0, current_raw}
        end

        redis.call('SET', entity_key, new_val)
        return {1, new_val}
    """,
    # KEYS[1] entity key; ARGV[1] new JSON
    "create_if_absent": """
        local entity_key = KEYS[1]
        local new_val = ARGV[1]

        local current_raw = redis.call('GET', entity_key)
        if current_raw then
            return {0, current_raw}
        end

        redis.call('SET', entity_key, new_val)
        return {1, new_val}
    """,
}


def parse_script_result(result: object) -> tuple[int, str]:
    """Normalize a ``{code, payload}`` script reply."""
    if not isinstance(result, (list, tuple)) or not result:
        raise RuntimeError(f"Unexpected script reply: {result!r}")
    code = int(result[0])
    payload = result[1] if len(result) > 1 and result[1] else ""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    return code, payload
