# constants.py

# roles a visitor may pick at registration
SELF_ASSIGNABLE_ROLES = {"donor", "campaign-leader"}

# (threshold on total donated, level), highest first
DONOR_LEVELS = [
    (500_000, "Diamond"),
    (100_000, "Platinum"),
    (50_000, "Gold"),
    (10_000, "Silver"),
    (0, "Bronze"),
]

IMPACT_POINT_UNIT = 100
LEADER_IMPACT_POINT_UNIT = 50

CATEGORIES = [
    {"value": "education", "label": "Education", "icon": "🎓"},
    {"value": "health", "label": "Health & Medical", "icon": "🏥"},
    {"value": "environment", "label": "Environment", "icon": "🌱"},
    {"value": "poverty", "label": "Poverty Relief", "icon": "🤝"},
    {"value": "disaster-relief", "label": "Disaster Relief", "icon": "🆘"},
    {"value": "other", "label": "Other Causes", "icon": "💝"},
]

# policy -> (max requests, window seconds)
RATE_LIMITS = {
    "general": (100, 15 * 60),
    "auth": (5, 15 * 60),
    "donation": (3, 5 * 60),
    "campaign": (5, 60 * 60),
    "password_reset": (3, 60 * 60),
    "payment": (10, 60),
}

# reporting windows in days
PERIODS = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
DEFAULT_PERIOD = "30d"

TRENDING_WINDOW_DAYS = 7
TRENDING_WEIGHTS = {"views": 0.3, "donor_count": 0.4, "shares": 0.3}
URGENT_WINDOW_DAYS = 3

DEFAULT_NOTIFICATION_PREFERENCES = {
    "email": True,
    "push": True,
    "sms": False,
    "donation_updates": True,
    "campaign_updates": True,
    "marketing": False,
}
