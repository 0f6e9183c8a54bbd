"""keepwatching: per-profile watch status tracking for shows, seasons, episodes and movies"""
