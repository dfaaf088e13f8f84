"""Redis Lua scripts for the allowance store.

Each mutating store operation runs as a single script so that the
check and the write happen atomically on the Redis server, regardless of
how many request handlers share the store.
"""

# Rolling-window check-and-consume over a sorted set of request timestamps.
# Entries whose score is at or before (now - window) have left the window.
# Returns {added, count_in_window, oldest_score_or_-1}
SLIDING_WINDOW_CONSUME_SCRIPT = """
    local key = KEYS[1]
    local quota = tonumber(ARGV[1])
    local window_ms = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])
    local member = ARGV[4]

    redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)
    local count = redis.call('ZCARD', key)

    local added = 0
    if count < quota then
        redis.call('ZADD', key, now_ms, member)
        redis.call('PEXPIRE', key, window_ms)
        count = count + 1
        added = 1
    end

    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local oldest_ms = -1
    if oldest[2] then
        oldest_ms = tonumber(oldest[2])
    end
    return {added, count, oldest_ms}
"""

# Read-only view of the same window. Does not prune; uses an exclusive
# lower bound instead.
# Returns {0, count_in_window, oldest_score_or_-1}
SLIDING_WINDOW_PEEK_SCRIPT = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])
    local now_ms = tonumber(ARGV[2])
    local lower = '(' .. tostring(now_ms - window_ms)

    local count = redis.call('ZCOUNT', key, lower, '+inf')
    local oldest = redis.call('ZRANGEBYSCORE', key, lower, '+inf', 'WITHSCORES', 'LIMIT', 0, 1)
    local oldest_ms = -1
    if oldest[2] then
        oldest_ms = tonumber(oldest[2])
    end
    return {0, count, oldest_ms}
"""

# Daily counter consume: reset-and-count-one when the window has elapsed,
# otherwise increment (stamping lastReset on the first ever increment).
# Returns {count, lastReset}
DAILY_CONSUME_SCRIPT = """
    local key = KEYS[1]
    local now_ms = tonumber(ARGV[1])
    local window_ms = tonumber(ARGV[2])

    local fields = redis.call('HMGET', key, 'count', 'lastReset')
    if fields[1] and not tonumber(fields[1]) then
        return redis.error_reply('ERR malformed daily counter count')
    end
    if fields[2] and not tonumber(fields[2]) then
        return redis.error_reply('ERR malformed daily counter lastReset')
    end
    local last_reset = tonumber(fields[2])

    if last_reset and now_ms - last_reset >= window_ms then
        redis.call('HSET', key, 'count', 1, 'lastReset', now_ms)
        return {1, now_ms}
    end

    local new_count = redis.call('HINCRBY', key, 'count', 1)
    if not last_reset then
        redis.call('HSET', key, 'lastReset', now_ms)
        last_reset = now_ms
    end
    return {new_count, last_reset}
"""

# Credit grant, optionally guarded by a processed-event marker (KEYS[2]).
# A marker that already exists means the event was applied before.
# Returns {applied, balance}
GRANT_CREDITS_SCRIPT = """
    local balance_key = KEYS[1]
    local amount = tonumber(ARGV[1])

    if #KEYS > 1 then
        local fresh = redis.call('SET', KEYS[2], ARGV[2], 'NX', 'EX', tonumber(ARGV[3]))
        if not fresh then
            local current = tonumber(redis.call('GET', balance_key) or '0')
            if current == nil then
                return redis.error_reply('ERR malformed credit balance')
            end
            return {0, current}
        end
    end

    local balance = redis.call('INCRBY', balance_key, amount)
    return {1, balance}
"""

# Credit debit by exactly one. Never writes a value below zero.
# Returns {debited, balance}
DEBIT_CREDIT_SCRIPT = """
    local key = KEYS[1]
    local balance = tonumber(redis.call('GET', key) or '0')
    if balance == nil then
        return redis.error_reply('ERR malformed credit balance')
    end
    if balance <= 0 then
        return {0, balance}
    end
    local new_balance = redis.call('DECR', key)
    return {1, new_balance}
"""
