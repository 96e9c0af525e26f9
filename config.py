import os
from dotenv import load_dotenv


#################
# Configuration
#################
load_dotenv()

# MongoDB config
MONGODB_URL = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "foodstalls")
MONGO_CONNECT_ATTEMPTS = int(os.getenv("MONGO_CONNECT_ATTEMPTS", "5"))
MONGO_RETRY_DELAY = float(os.getenv("MONGO_RETRY_DELAY", "5"))

# Secret key and JWT config
JWT_SECRET = os.getenv("JWT_SECRET")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Server
PORT = int(os.getenv("PORT", "5000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_DEFAULT_ORIGINS = "https://streetup-frontend.onrender.com,http://localhost:5000,http://localhost:5173"
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", _DEFAULT_ORIGINS).split(",")
    if origin.strip()
]

# Collection names
USERS = "users"
QUESTIONS = "queries"
ANSWERS = "answers"
STALLS = "localstalls"
