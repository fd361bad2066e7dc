"""
ata2 v2.0.0: Ask the Terminal Anything², streaming chat in your terminal.

Command: ata2
"""

import logging
import sys

import click
from rich.console import Console

from . import __version__
from .config import (
    CONFIG_DIR,
    EXAMPLE_CONFIG,
    Config,
    write_example_config,
)
from .conversation import ConversationStore
from .coordinator import RequestCoordinator
from .errors import ConfigError, ConfigNotFoundError, ConversationLoadError
from .line_source import open_line_source
from .logger import setup_logger
from .pipeline import RequestPipeline
from .renderer import Renderer
from .state import SessionContext
from .transport import ChatTransport

_log = logging.getLogger(__name__)

console = Console(stderr=True, highlight=False)
BANNER = "[bold]Ask the Terminal Anything²[/bold]\n"

KEYBINDINGS = """\
Keyboard shortcuts

  Enter          Send the prompt (inserts a newline with multiline-insertions)
  Ctrl-D         Send the prompt with multiline-insertions; on an empty line, exit
  Ctrl-C         Abort the response being streamed
  Ctrl-C Ctrl-C  Exit while no response is streaming (once if double-ctrlc is off)
  Up / Down      Browse previously sent prompts
  Ctrl-R         Search previously sent prompts
"""

MISSING_CONFIG_HELP = """
Could not find the file `{path}`. To fix this, create it.

For example, use the following content (the text between the ```):

```
{example}```

Here, replace `<YOUR SECRET API KEY>` with your API key, which you can request
via https://platform.openai.com/account/api-keys.

The `max-tokens` sets the maximum amount of tokens that the server can answer
with. Longer answers will be truncated.

The `temperature` sets the sampling temperature. Higher values make the model
take more risks; 0 (argmax sampling) suits questions with a well-defined answer.
"""


def _offer_example_config(path) -> None:
    console.print(MISSING_CONFIG_HELP.format(path=path, example=EXAMPLE_CONFIG), markup=False)
    if not sys.stdin.isatty():
        return
    if click.confirm(f"Do you want me to write this example file to {path} for you to edit?",
                     default=False, err=True):
        write_example_config(path)
        console.print(f"Wrote {path}. Edit it and run ata2 again.")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", "-c", "config_location", default="",
              help=f"Path to the configuration YAML file, or a config name in {CONFIG_DIR}")
@click.option("--hide-config", is_flag=True, help="Avoid printing the configuration")
@click.option("--print-shortcuts", is_flag=True, help="Print the keyboard shortcuts")
@click.option("--load", "load_path", default=None, type=click.Path(dir_okay=False),
              help="Seed the conversation from a saved file")
@click.option("--save", "save_path", default=None, type=click.Path(dir_okay=False),
              help="Save the conversation to this file on exit")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.version_option(__version__, prog_name="ata2")
def cli(config_location, hide_config, print_shortcuts, load_path, save_path, verbose):
    """Ask the Terminal Anything²: chat with a language model from your terminal."""
    setup_logger("ata2", verbose=verbose)

    if print_shortcuts:
        click.echo(KEYBINDINGS)
        return

    try:
        config = Config.load(config_location)
    except ConfigNotFoundError as e:
        _offer_example_config(e.path)
        sys.exit(1)
    except ConfigError as e:
        _log.error("Config error!: %s. Dying.", e)
        console.print(f"[red]Config error: {e}[/red]")
        sys.exit(1)

    store = ConversationStore()
    if load_path:
        try:
            store.load_from(load_path)
        except ConversationLoadError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)

    renderer = Renderer(err_console=console)
    if renderer.decorated:
        console.print(BANNER)
        if not hide_config and not config.ui.hide_config:
            renderer.render_config(config)

    api_key = config.resolve_api_key()
    if not api_key:
        renderer.print_warning("No API key configured; requests will likely be rejected.")

    context = SessionContext(config)
    pipeline = RequestPipeline(
        transport=ChatTransport(config.endpoint, api_key),
        store=store,
        renderer=renderer,
        context=context,
        params=config.request_params(),
    )
    line_source = open_line_source(config.ui)
    coordinator = RequestCoordinator(
        context, line_source, pipeline, renderer, double_ctrlc=config.ui.double_ctrlc,
    )
    coordinator.run()

    if line_source.interactive and config.ui.save_history:
        _log.info("Saved history to %s. Number of entries: %d",
                  config.ui.history_file, line_source.history_len)
    if save_path:
        store.save_to(save_path)


if __name__ == "__main__":
    cli()
