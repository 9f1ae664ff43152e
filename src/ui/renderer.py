"""
Terminal preview of backgrounds using rich.
"""

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from world.background import Background
from world.compositor import top_tiles
from world.tileset import Tileset

# Cycled per tile index so neighbouring tiles are easy to tell apart.
PALETTE = [
    "bright_red",
    "bright_green",
    "bright_yellow",
    "bright_blue",
    "bright_magenta",
    "bright_cyan",
    "orange3",
    "plum2",
]


class BackgroundRenderer:
    """Renders a background's topmost visible tiles as a grid of indices."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def tile_text(self, index: int, cell_width: int) -> Text:
        if index == 0:
            return Text("·".rjust(cell_width), style="grey37")
        style = PALETTE[(index - 1) % len(PALETTE)]
        return Text(str(index).rjust(cell_width), style=style)

    def grid_table(self, background: Background) -> Table:
        tiles = top_tiles(background)
        cell_width = max(1, len(str(int(tiles.max()))))
        table = Table(
            title=f"{background.name} ({background.width}x{background.height})",
            show_header=False,
            box=None,
            padding=(0, 0),
        )
        for _ in range(background.width):
            table.add_column(justify="right", no_wrap=True)
        for row in tiles:
            table.add_row(*[self.tile_text(int(v), cell_width + 1) for v in row])
        return table

    def layer_table(self, background: Background, tileset: Optional[Tileset] = None) -> Table:
        table = Table(title="Layers")
        table.add_column("#", justify="right")
        table.add_column("Name")
        table.add_column("Visible")
        table.add_column("Painted", justify="right")
        for i, layer in enumerate(background.layers):
            painted = sum(1 for _ in layer.grid.nonzero())
            table.add_row(
                str(i),
                layer.name,
                "yes" if layer.visible else "no",
                f"{painted}/{len(layer.grid)}",
            )
        if tileset is not None:
            table.caption = (
                f"tileset {tileset.name}: {tileset.columns}x{tileset.rows} tiles "
                f"of {tileset.tile_width}x{tileset.tile_height}px"
            )
        return table

    def render(self, background: Background, tileset: Optional[Tileset] = None):
        self.console.print(self.grid_table(background))
        self.console.print(self.layer_table(background, tileset))
