"""Click group that prints the failing command's help on usage errors."""

from typing import Any

import click


class RdlaunchGroup(click.Group):
    """Click group that shows contextual help on usage errors."""

    def invoke(self, ctx: click.Context) -> Any:
        # Command lookup and subcommand argument parsing both fail inside invoke
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            click.echo(f"Error: {e.format_message()}", err=True)
            error_ctx = e.ctx or ctx
            click.echo("")
            click.echo(error_ctx.get_help())
            error_ctx.exit(e.exit_code)


# Subgroups created with @main.group() also use RdlaunchGroup
RdlaunchGroup.group_class = RdlaunchGroup
