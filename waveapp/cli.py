from pathlib import Path

import click
from flask import current_app

from waveapp.errors import InventoryError
from waveapp.importer import import_products, read_product_file


def register_commands(app):
    @app.cli.command("import-products")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    def import_products_command(path):
        """Import products from an Excel/CSV upload sheet."""
        inventory = current_app.extensions["inventory"]
        df = read_product_file(path.read_bytes(), path.name)
        try:
            result = import_products(df, inventory.service)
        except InventoryError as exc:
            raise click.ClickException(str(exc))

        click.echo(f"{result['created']} produk dibuat.")
        for note in result["skipped_notes"]:
            click.echo(f"  dilewati - {note}")
