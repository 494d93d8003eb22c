"""Taskgate operator CLI."""

import typer
from sqlalchemy.engine import make_url

app = typer.Typer(name="taskgate", help="Taskgate CLI")
db_app = typer.Typer(help="Database management commands")
app.add_typer(db_app, name="db")


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from taskgate.core.config import settings

    url = make_url(settings.DATABASE_URL)
    if not url.drivername.startswith("mysql"):
        typer.echo(f"Nothing to create for {url.drivername}; run 'taskgate db init'")
        return

    conn = pymysql.connect(
        host=url.host or "localhost",
        port=url.port or 3306,
        user=url.username,
        password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    from taskgate.db.base import Base
    from taskgate.db.session import engine
    import taskgate.models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(bind=engine)
    typer.echo("Tables created")


@db_app.command("seed")
def db_seed():
    """Seed the system roles and the admin user."""
    from taskgate.db.session import SessionLocal
    from taskgate.db.seeds.seed_roles import seed_roles
    from taskgate.db.seeds.seed_admin import seed_admin

    db = SessionLocal()
    try:
        added = seed_roles(db)
        admin = seed_admin(db)
    finally:
        db.close()
    typer.echo(f"Seeded {added} roles" + (f", admin user id {admin.id}" if admin else ""))


@app.command("grant")
def grant(
    email: str = typer.Argument(..., help="Email of the user"),
    role_name: str = typer.Argument(..., help="Name of the role to assign"),
):
    """Assign a role to a user."""
    from taskgate.core.exceptions import TaskGateError
    from taskgate.db.session import SessionLocal
    from taskgate.models.role import Role
    from taskgate.models.user import User
    from taskgate.services.role_service import role_service

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        role = db.query(Role).filter(Role.name == role_name).first()
        if not user or not role:
            typer.echo(f"Unknown {'user' if not user else 'role'}: {email if not user else role_name}", err=True)
            raise typer.Exit(code=1)
        try:
            role_service.grant(db, user.id, role.id)
        except TaskGateError as exc:
            typer.echo(exc.message, err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Granted '{role_name}' to {email}")
    finally:
        db.close()


@app.command("traffic-lights")
def traffic_lights():
    """Refresh the cached traffic light of every unfinished task now."""
    from taskgate.db.session import SessionLocal
    from taskgate.services.task_service import task_service

    db = SessionLocal()
    try:
        changed = task_service.refresh_cached_traffic_lights(db)
    finally:
        db.close()
    typer.echo(f"{changed} task(s) changed color")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("taskgate.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
