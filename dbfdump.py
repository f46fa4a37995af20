"""
dbfdump - write a .DBF table as CSV.

Usage:
    $ dbfdump input.dbf [output.csv]
    $ dbfdump --schema input.dbf

The first CSV row holds the field names; deleted rows are skipped.
"""

import csv
import logging
from pathlib import Path

import click

from dbf_cli import handle_cli_exception, setup_logging
from dbf_codec import DBF_DEFAULT_ENCODING, build_field_spec
from dbf_convert import table_to_csv
from dbf_module import dbf_table_open


logger = logging.getLogger(__name__)


@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument(
    "output_file",
    required=False,
    default="output.csv",
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option(
    "--schema",
    is_flag=True,
    help="Print the field definitions instead of writing CSV",
)
@click.option(
    "-e", "--encoding",
    default=DBF_DEFAULT_ENCODING,
    show_default=True,
    help="Text encoding of the table and the CSV file",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Show debug output",
)
def main(input_file: Path, output_file: Path, schema: bool, encoding: str, verbose: bool) -> None:
    """
    Dump a dBase III table to CSV.

    \b
    Examples:
      dbfdump customers.dbf
      dbfdump customers.dbf customers.csv
      dbfdump --schema customers.dbf
    """
    setup_logging(verbose)

    try:
        table = dbf_table_open(str(input_file), encoding=encoding)

        if schema:
            for field in table.fields:
                click.echo(f"{field.name:<10} {build_field_spec(field.field_type, field.length, field.decimals)}")
            return

        with open(output_file, 'w', newline='', encoding=encoding) as f:
            count = table_to_csv(table, csv.writer(f))
        logger.info("Total records in CSV: %d", count)

    except Exception as e:
        handle_cli_exception(e, verbose)


if __name__ == "__main__":
    main()
