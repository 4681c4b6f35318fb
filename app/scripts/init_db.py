from app.database.database import ensure_indexes


def init_db():
    ensure_indexes()
    print("✅ Indexes created")


if __name__ == "__main__":
    init_db()
