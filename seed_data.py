import os

from sqlmodel import Session, select

from app.core.logging_config import configure_logging
from app.db.session import create_db_and_tables, engine
from app.models.post import Post
from app.models.user import UserRole
from app.services.auth import AuthContext, AuthService
from app.services.post import PostService

ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "admin123")

WELCOME_POST = {
    "title": "Welcome to the blog",
    "slug": "welcome-to-the-blog",
    "content": [
        {"type": "heading", "content": "Hello there"},
        {"type": "paragraph", "content": "Posts are built from <b>blocks</b>: text, images, code and embeds."},
        {"type": "code", "content": "print('hello')", "language": "python"},
        {"type": "divider"},
        {"type": "quote", "content": "Write something worth reading."},
    ],
    "tags": ["welcome", "meta"],
    "published": True,
}


def seed():
    print("Creating database and tables...")
    create_db_and_tables()

    with Session(engine) as session:
        auth_service = AuthService(session)
        admin = auth_service.get_user_by_email(ADMIN_EMAIL)
        if admin:
            print(f"Admin {ADMIN_EMAIL} already exists.")
        else:
            admin = auth_service.create_user(ADMIN_EMAIL, ADMIN_PASSWORD, name="Admin", role=UserRole.ADMIN)
            print(f"Created admin {ADMIN_EMAIL}")

        if session.exec(select(Post).where(Post.slug == WELCOME_POST["slug"])).first():
            print("Welcome post already exists. Skipping seed.")
            return

        PostService(session).create_post(WELCOME_POST, AuthContext.for_user(admin))
        print("Seeded welcome post.")


if __name__ == "__main__":
    configure_logging()
    seed()
