# promoapi/cli.py
import click
from werkzeug.security import generate_password_hash
from .extensions import db
from .model import User
from .utils.decorators import ROLE_LEVEL


@click.command("create-user")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", required=True)
@click.option("--role", type=click.Choice(sorted(ROLE_LEVEL)), default="admin", show_default=True)
@click.option("--group", "groups", multiple=True, help="User group for user_group conditions (repeatable).")
def create_user(email, password, name, role, groups):
    """Create a staff or shopper account."""
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException(f"{email} already exists")
    u = User(email=email, name=name.strip(), role=role, groups=sorted(set(groups)) or None,
             password_hash=generate_password_hash(password))
    db.session.add(u)
    db.session.commit()
    click.echo(f"Created {u.role} {u.id} {u.email}")


@click.command("init-db")
def init_db():
    db.create_all()
    click.echo("Database tables created")


def register_cli(app):
    app.cli.add_command(create_user)
    app.cli.add_command(init_db)
