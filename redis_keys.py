REDIS_META_KEY = "room:meta:{slug}" # room id - provisioned room metadata

# **Example `room:meta:{id}` hash fields**
# - `room_id` = `{roomId}`
# - `created_at` = ISO timestamp
# - `expires_at` = ISO timestamp (TTL on the key is authoritative)
# - `password_salt` = hex salt
# - `password_hash` = hex PBKDF2-SHA256 digest
