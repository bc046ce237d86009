"""
Constants used across the matchmaking and rating system.
"""

# Match sizing
MIN_PLAYERS_NEEDED = 6
MAX_PLAYERS_NEEDED = 22
TEAMS_PER_MATCH = 2
GOALKEEPERS_PER_TEAM = 1
FIELD_POSITION_COUNT = 3  # defender, midfielder, forward

DEFAULT_PARTY_NAME_TEMPLATE = "Football at {location}"

# Letter grade -> representative numeric value (midpoint of the grade band)
GRADE_VALUES = {
    "S": 95,  # 90-100
    "A": 85,  # 80-89
    "B": 75,  # 70-79
    "C": 65,  # 60-69
    "D": 55,  # 50-59
}

# Rating attribute on PlayerRating -> aggregate stat on UserProfile
RATING_ATTRIBUTES = {
    "speed_given": "speed",
    "defense_given": "defense",
    "offense_given": "offense",
    "shooting_given": "shooting",
    "dribbling_given": "dribbling",
    "passing_given": "passing",
}

# Leaderboard
MIN_RATINGS_FOR_LEADERBOARD = 3
DEFAULT_LEADERBOARD_LIMIT = 50
MAX_LEADERBOARD_LIMIT = 200

# Profiles
DISPLAY_NAME_MIN_LENGTH = 2
DISPLAY_NAME_MAX_LENGTH = 30
MIN_AGE = 13
MAX_AGE = 100

# Chat
MAX_CHAT_MESSAGE_LENGTH = 500
