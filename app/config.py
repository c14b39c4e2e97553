import os
from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

# Timer engine
TIMER_TICK_SECONDS = float(os.getenv("TIMER_TICK_SECONDS", "1"))
TIMER_OVERVIEW_REFRESH_SECONDS = float(os.getenv("TIMER_OVERVIEW_REFRESH_SECONDS", "30"))
TIMER_OVERVIEW_MAX_VISIBLE = int(os.getenv("TIMER_OVERVIEW_MAX_VISIBLE", "4"))
TIMER_DISPLAY_TIMEZONE = os.getenv("TIMER_DISPLAY_TIMEZONE", "UTC")

# Push notifications
EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")

# Completion alerts
TIMER_PUSH_NOTIFICATIONS = os.getenv("TIMER_PUSH_NOTIFICATIONS", "false").lower() in ("1", "true", "yes")
TIMER_ALARM_CLIP_DIR = os.getenv("TIMER_ALARM_CLIP_DIR")
