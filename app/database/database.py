from contextlib import contextmanager
import logging
import os
from urllib.parse import quote_plus

import certifi
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING, MongoClient

# Load variables from .env when present
load_dotenv()

logger = logging.getLogger(__name__)

# Remote URI; can also be assembled from parts so passwords get URL-encoded
MONGO_URI = os.getenv("MONGO_URI")
if not MONGO_URI:
    user = os.getenv("MONGO_USER")
    password = os.getenv("MONGO_PASSWORD")
    host = os.getenv("MONGO_HOST")
    if user and password and host:
        params = os.getenv("MONGO_OPTIONS", "retryWrites=true&w=majority")
        app_name = os.getenv("MONGO_APP_NAME")
        if app_name:
            params += f"&appName={quote_plus(app_name)}"
        MONGO_URI = f"mongodb+srv://{quote_plus(user)}:{quote_plus(password)}@{host}/?{params}"
    else:
        MONGO_URI = "mongodb://localhost:27017"

DB_NAME = os.getenv("DB_NAME", "urja_station")

# Multi-document transactions need a replica set; standalone servers run without them
MONGO_TRANSACTIONS = os.getenv("MONGO_TRANSACTIONS", "true").lower() == "true"


def _client_options() -> dict:
    opts = {"serverSelectionTimeoutMS": 5000}
    if MONGO_URI.startswith("mongodb+srv://") or os.getenv("MONGO_TLS", "false").lower() == "true":
        opts["tlsCAFile"] = certifi.where()
    return opts


# MongoClient connects lazily on first operation
client = MongoClient(MONGO_URI, **_client_options())
db = client[DB_NAME]

STATIONS = "stations"
BOOKINGS = "bookings"
USERS = "users"
REVIEWS = "reviews"


def ping():
    """Check the server is reachable."""
    client.admin.command("ping")


def stations():
    return db[STATIONS]


def bookings():
    return db[BOOKINGS]


def users():
    return db[USERS]


def reviews():
    return db[REVIEWS]


@contextmanager
def transaction():
    """
    Open a session with a transaction and hand it to the block.
    The transaction is aborted if the block raises.
    With MONGO_TRANSACTIONS=false it yields None and operations run without a session.
    """
    if not MONGO_TRANSACTIONS:
        yield None
        return
    with client.start_session() as session:
        with session.start_transaction():
            yield session


def ensure_indexes():
    users().create_index("auth_id", unique=True)
    users().create_index("email", unique=True)
    stations().create_index("admin_id")
    stations().create_index("location.city")
    stations().create_index([("location.coordinates.lat", ASCENDING), ("location.coordinates.lng", ASCENDING)])
    bookings().create_index("user_id")
    bookings().create_index("status")
    bookings().create_index("source")
    bookings().create_index("khalti_pidx")
    bookings().create_index([("start_time", ASCENDING), ("end_time", ASCENDING)])
    bookings().create_index([("station_id", ASCENDING), ("port_id", ASCENDING), ("start_time", ASCENDING)])
    bookings().create_index([("created_at", DESCENDING)])
    reviews().create_index("station_id")
    reviews().create_index("booking_id", unique=True, sparse=True)
    logger.info("Mongo indexes ensured")
