import os
from dotenv import load_dotenv

load_dotenv()

database_url = os.getenv("DATABASE_URL")
user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT", "5432")
db_name = os.getenv("DB_NAME")

start_time_minutes = int(os.getenv("START_TIME_MINUTES", "120"))
tick_interval_seconds = int(os.getenv("TICK_INTERVAL_SECONDS", "60"))
log_limit = int(os.getenv("LOG_LIMIT", "200"))
log_level = os.getenv("LOG_LEVEL", "INFO").upper()

if __name__ == "__main__":
    print(database_url, user, host, port, db_name, start_time_minutes, tick_interval_seconds)
