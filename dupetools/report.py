"""Rendering and export of duplicate groups."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from rich.console import Console
from rich.table import Table

from .models import DuplicateGroup, KeeperDecision, MatchConfig
from .resolution import select_keeper


def _fmt_duration(seconds: Optional[int]) -> str:
    if not seconds:
        return "-"
    return f"{seconds // 60}:{seconds % 60:02d}"


def group_table(
    group: DuplicateGroup, decision: Optional[KeeperDecision] = None, resolve: bool = False
) -> Table:
    """One rich table per group; with ``resolve`` the keeper is ticked."""
    keeper_key = decision.keeper.key if decision else None
    title = f"Group {group.group_id} ({len(group)} files)"
    if resolve:
        title += f" - keep: {decision.reason}" if decision else " - manual review"
    table = Table(title=title, title_justify="left")
    table.add_column("", width=1)
    table.add_column("Artist", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Album")
    table.add_column("#", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("kbps", justify="right")
    table.add_column("Path", style="dim", overflow="fold")
    for entry in group.entries:
        table.add_row(
            "[green]✓[/green]" if entry.key == keeper_key else "",
            entry.artist or "-",
            entry.title or "-",
            entry.album or "-",
            str(entry.track_number or "-"),
            _fmt_duration(entry.duration),
            str(entry.bitrate or "-"),
            str(entry.key),
        )
    return table


def print_groups(groups: Sequence[DuplicateGroup], console: Console, resolve: bool = False) -> None:
    for group in groups:
        decision = select_keeper(group.entries) if resolve else None
        console.print(group_table(group, decision, resolve=resolve))


def groups_to_dict(groups: Iterable[DuplicateGroup], config: MatchConfig) -> Dict[str, Any]:
    payload: List[Dict[str, Any]] = []
    for group in groups:
        decision = select_keeper(group.entries)
        payload.append(
            {
                "group_id": group.group_id,
                "keeper": decision.keeper.key if decision else None,
                "reason": decision.reason if decision else "manual review",
                "entries": [
                    {
                        "path": e.key,
                        "title": e.title,
                        "artist": e.artist,
                        "album": e.album,
                        "track_number": e.track_number,
                        "duration": e.duration,
                        "bitrate": e.bitrate,
                    }
                    for e in group.entries
                ],
            }
        )
    return {"profile": config.to_dict(), "groups": payload}


def write_groups_json(
    groups: Iterable[DuplicateGroup], config: MatchConfig, output_path: Union[str, Path]
) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(groups_to_dict(groups, config), f, indent=2, ensure_ascii=False)
    return output_path
