import os
from dotenv import load_dotenv

from jenkins_monitor.utils.casting import non_empty

load_dotenv()

class Env:
    # Jenkins
    JENKINS_URL = non_empty(os.getenv("JENKINS_URL"))
    JENKINS_USERNAME = non_empty(os.getenv("JENKINS_USERNAME"))
    JENKINS_API_TOKEN = non_empty(os.getenv("JENKINS_API_TOKEN"))

    # Alerts
    DISCORD_WEBHOOK_URL = non_empty(os.getenv("DISCORD_WEBHOOK_URL"))
    SMTP_USERNAME = non_empty(os.getenv("SMTP_USERNAME"))
    SMTP_PASSWORD = non_empty(os.getenv("SMTP_PASSWORD"))

    # Service
    MONITOR_CONFIG = non_empty(os.getenv("MONITOR_CONFIG"))
    LOG_LEVEL = non_empty(os.getenv("LOG_LEVEL"))
    LOG_DIR = non_empty(os.getenv("LOG_DIR"))
    LOG_STDOUT = non_empty(os.getenv("LOG_STDOUT"))
