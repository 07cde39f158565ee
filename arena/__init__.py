"""
Arena - Esports Community Platform API

Responsibilities:
- Accounts and bearer-token authentication
- Towers (clans), their teams and membership roles
- Tournaments, registrations and matches
- Notifications (persisted, optionally pushed through Redis)
- Profiles, badges, achievements and XP progression
- Leaderboards (players, towers, teams, comparisons)
"""
