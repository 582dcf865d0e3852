from config.schema import AppConfig


def default_app_config() -> AppConfig:
    """Default configuration: local JSON store, 40h cell limit, 80/100% thresholds."""
    return AppConfig()


# ─── Default hour types ───────────────────────────────────────────────────────
# Seeded by `hour-types init-defaults` for a user without hour types.

DEFAULT_HOUR_TYPES: list[dict] = [
    {"name": "שעות הוראה", "description": "שעות הוראה רגילות בכיתה",
     "color": "#3B82F6", "is_class_hour": True},
    {"name": "שעות תיאום", "description": "שעות תיאום ותכנון עם צוות החינוך",
     "color": "#10B981", "is_class_hour": False},
    {"name": "שעות הכנה", "description": "שעות הכנת שיעורים ובדיקת עבודות",
     "color": "#F59E0B", "is_class_hour": False},
    {"name": "שעות פיקוח", "description": "שעות פיקוח על תלמידים (הפסקות, מרכזיות)",
     "color": "#EF4444", "is_class_hour": False},
    {"name": "שעות הדרכה", "description": "הדרכת מורים חדשים וסטודנטים",
     "color": "#8B5CF6", "is_class_hour": False},
    {"name": "שעות מנהליות", "description": "עבודה מנהלית, ישיבות צוות",
     "color": "#6B7280", "is_class_hour": False},
    {"name": "שעות תמיכה", "description": "תמיכה בתלמידים עם קשיים",
     "color": "#EC4899", "is_class_hour": True},
    {"name": "שעות חוגים", "description": "העשרה וחוגים אחר הצהריים",
     "color": "#14B8A6", "is_class_hour": False},
]

# Colour choices offered when creating an hour type
HOUR_TYPE_PALETTE: list[str] = [
    "#3B82F6", "#EF4444", "#10B981", "#F59E0B",
    "#8B5CF6", "#EC4899", "#6B7280", "#14B8A6",
]

# Primary school grades
GRADES: list[str] = ["א", "ב", "ג", "ד", "ה", "ו"]

COMMON_SUBJECTS: list[str] = [
    "מתמטיקה", "עברית", "אנגלית", "מדעים", "היסטוריה", "גיאוגרפיה",
    "חינוך גופני", "מוזיקה", "אמנות", "תנ״ך", "מחשבים", "טכנולוגיה",
]
