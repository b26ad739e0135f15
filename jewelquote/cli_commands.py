"""
Flask CLI commands for database setup.

Commands:
- flask init-db: Create all tables
- flask seed-settings: Insert default business settings that are missing
"""

import click
from jewelquote.database import create_all, get_session
from jewelquote.services.settings_service import seed_default_settings


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables for all models."""
        try:
            create_all()
        except Exception as e:
            click.echo(click.style(f'Error creating tables: {e}', fg='red'))
            raise click.Abort()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('seed-settings')
    def seed_settings_command():
        """Insert default settings (company details, labour rate, markup...)."""
        try:
            added = seed_default_settings(get_session())
        except Exception as e:
            click.echo(click.style(f'Error seeding settings: {e}', fg='red'))
            raise click.Abort()

        if added:
            click.echo(click.style(f'{added} default settings added.', fg='green'))
        else:
            click.echo('All default settings already present.')
