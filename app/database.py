from pymongo import MongoClient, DESCENDING
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from app.core.config import settings
import logging
import certifi
import time

logger = logging.getLogger(__name__)

ANALYSIS_LOG_COLLECTION = "skin_analysis_logs"

class Database:
    client: MongoClient = None
    database = None

db = Database()

def _extract_database_name(url: str, default_name: str) -> str:
    """Extract database name from MongoDB URL or use default"""
    url_without_params = url.split("?")[0]
    parts = url_without_params.split("/")
    if len(parts) > 3 and parts[-1] and parts[-1] != "test":
        return parts[-1]
    return default_name

def get_database():
    """Get database instance (None when the log sink is inactive)"""
    return db.database

def connect_to_mongo(max_retries: int = 3, retry_delay: float = 2):
    """Create database connection with retry logic"""
    for attempt in range(max_retries):
        try:
            logger.info(f"Connecting to MongoDB (attempt {attempt + 1}/{max_retries})...")

            if "mongodb+srv://" in settings.MONGODB_URL:
                logger.info("Detected MongoDB Atlas connection")
                db.client = MongoClient(
                    settings.MONGODB_URL,
                    serverSelectionTimeoutMS=15000,
                    connectTimeoutMS=30000,
                    socketTimeoutMS=30000,
                    maxPoolSize=50,
                    retryWrites=True,
                    w='majority',
                    tls=True,
                    tlsCAFile=certifi.where(),
                )
            else:
                logger.info("Detected local MongoDB connection")
                db.client = MongoClient(
                    settings.MONGODB_URL,
                    serverSelectionTimeoutMS=5000,
                    connectTimeoutMS=10000,
                    socketTimeoutMS=10000,
                    maxPoolSize=20,
                )

            database_name = _extract_database_name(settings.MONGODB_URL, settings.DATABASE_NAME)
            logger.info(f"Using database: {database_name}")

            db.database = db.client[database_name]
            db.client.admin.command('ping', maxTimeMS=5000)
            logger.info("Connected to MongoDB successfully")

            create_indexes()
            return

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.warning(f"Connection attempt {attempt + 1} failed: {e}")
            if attempt < max_retries - 1:
                logger.info(f"Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.error(f"Failed to connect to MongoDB after {max_retries} attempts")
                close_mongo_connection()
                raise

def close_mongo_connection():
    """Close database connection"""
    if db.client:
        db.client.close()
        logger.info("Disconnected from MongoDB")
    db.client = None
    db.database = None

def create_indexes():
    """Create database indexes for the analysis log"""
    try:
        db.database[ANALYSIS_LOG_COLLECTION].create_index([("created_at", DESCENDING)])
        logger.info("Database indexes created successfully")
    except Exception as e:
        logger.error(f"Error creating indexes: {e}")
