from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import pygame

from .simulation import Simulation
from .supply_demand import stock_days
from .village import RESOURCE_TYPES, BalanceLevel, Village

TILE_COLOURS = {
    "water": (40, 90, 170),
    "land": (110, 160, 70),
    "forest": (30, 100, 40),
    "mountain": (130, 120, 110),
    "road": (170, 150, 110),
}

LEVEL_COLOURS = {
    "critical": (255, 68, 68),
    "major": (255, 170, 0),
    "minor": (255, 255, 68),
}

MAX_LISTED_VILLAGES = 8


# ------------------------------------------------------------------ #
# Shortage analysis (pure)
# ------------------------------------------------------------------ #
@dataclass
class ResourceShortage:
    resource: str
    level: BalanceLevel
    stock_days: float
    production: float
    consumption: float


@dataclass
class VillageShortageInfo:
    village: Village
    shortages: list[ResourceShortage] = field(default_factory=list)
    severity: str = "minor"  # "critical" | "major" | "minor"


_SEVERITY_ORDER = {"critical": 3, "major": 2, "minor": 1}


def analyze_village_shortages(villages: Sequence[Village]) -> list[VillageShortageInfo]:
    """Villages with at least one shortage or critical resource, worst first."""
    infos = []
    for village in villages:
        shortages = []
        for resource in RESOURCE_TYPES:
            level = BalanceLevel(village.economy.supply_demand_status[resource])
            if level not in (BalanceLevel.SHORTAGE, BalanceLevel.CRITICAL):
                continue
            production = village.economy.production.get(resource)
            consumption = village.economy.consumption.get(resource)
            shortages.append(ResourceShortage(
                resource=resource,
                level=level,
                stock_days=stock_days(village.economy.stock.get(resource), consumption),
                production=production,
                consumption=consumption,
            ))
        if not shortages:
            continue

        critical = sum(1 for s in shortages if s.level == BalanceLevel.CRITICAL)
        if critical >= 2:
            severity = "critical"
        elif critical == 1 or len(shortages) >= 2:
            severity = "major"
        else:
            severity = "minor"
        infos.append(VillageShortageInfo(village=village, shortages=shortages, severity=severity))

    infos.sort(key=lambda info: _SEVERITY_ORDER[info.severity], reverse=True)
    return infos


def summary_lines(infos: Sequence[VillageShortageInfo]) -> list[str]:
    if not infos:
        return ["All villages have adequate resources.", "No shortages detected."]

    counts = {name: sum(1 for i in infos if i.severity == name) for name in _SEVERITY_ORDER}
    lines = [
        "Resource Shortage Summary:",
        f"Critical: {counts['critical']} | Major: {counts['major']} | Minor: {counts['minor']}",
        "",
    ]
    for info in infos[:MAX_LISTED_VILLAGES]:
        v = info.village
        lines.append(f"[{info.severity.upper()}] Village ({v.x}, {v.y}) Pop: {int(v.population)}")
        for s in info.shortages:
            days = "No consumption" if math.isinf(s.stock_days) else f"{s.stock_days:.1f} days"
            lines.append(f"  {s.resource.upper()} {s.level.value} ({days})")
            lines.append(f"    Prod: {s.production:.1f} | Cons: {s.consumption:.1f}")
    if len(infos) > MAX_LISTED_VILLAGES:
        lines.append(f"... and {len(infos) - MAX_LISTED_VILLAGES} more villages with shortages")
    return lines


def summary_colour(infos: Sequence[VillageShortageInfo]) -> tuple[int, int, int]:
    if not infos:
        return (0, 255, 0)
    return LEVEL_COLOURS[max(infos, key=lambda i: _SEVERITY_ORDER[i.severity]).severity]


# ------------------------------------------------------------------ #
# Rendering
# ------------------------------------------------------------------ #
class VillageStatusPanel:
    """Read-only text panel listing villages in trouble."""

    def __init__(self, rect: pygame.Rect, font: pygame.font.Font | None = None):
        self.rect = rect
        self.font = font or pygame.font.Font(None, 20)
        self.line_height = self.font.get_linesize()

    def draw(self, surface: pygame.Surface, villages: Sequence[Village]) -> list[str]:
        pygame.draw.rect(surface, (15, 15, 25), self.rect)
        pygame.draw.rect(surface, (90, 90, 140), self.rect, 1)

        infos = analyze_village_shortages(villages)
        lines = summary_lines(infos)
        colour = summary_colour(infos)

        y = self.rect.top + 6
        for text in lines:
            if y + self.line_height > self.rect.bottom:
                break
            surface.blit(self.font.render(text, True, colour), (self.rect.left + 6, y))
            y += self.line_height
        return lines


def draw_terrain(surface: pygame.Surface, sim: Simulation, tile_px: int) -> None:
    """Tiles shaded by remaining resources, villages as rings sized by population."""
    for y, row in enumerate(sim.terrain):
        for x, tile in enumerate(row):
            base = TILE_COLOURS[tile.tile_type]
            visual = sim.resource_manager.visual_state(tile)
            colour = tuple(int(c * visual.opacity * t / 255) for c, t in zip(base, visual.tint))
            pygame.draw.rect(surface, colour, (x * tile_px, y * tile_px, tile_px, tile_px))

    for village in sim.villages:
        centre = (int((village.x + 0.5) * tile_px), int((village.y + 0.5) * tile_px))
        radius = max(3, int(math.sqrt(max(1.0, village.population))))
        pygame.draw.circle(surface, (255, 255, 255), centre, radius, 1)
        reach = int(village.collection_radius * tile_px + tile_px / 2)
        pygame.draw.rect(surface, (200, 200, 90),
                         (centre[0] - reach, centre[1] - reach, reach * 2, reach * 2), 1)


def run_window(sim: Simulation, tile_px: int = 16, panel_width: int = 320) -> None:
    """Interactive viewer: P pauses, F toggles fast mode, Esc/Q quits."""
    pygame.init()
    world_px = sim.size * tile_px
    screen = pygame.display.set_mode((world_px + panel_width, world_px))
    pygame.display.set_caption("Village Economy")
    clock = pygame.time.Clock()
    font = pygame.font.Font(None, 20)
    panel = VillageStatusPanel(pygame.Rect(world_px + 4, 40, panel_width - 8, world_px - 50), font)

    paused = False
    fast_mode = False
    running = True
    while running:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.KEYDOWN:
                if event.key in (pygame.K_ESCAPE, pygame.K_q):
                    running = False
                elif event.key == pygame.K_p:
                    paused = not paused
                elif event.key == pygame.K_f:
                    fast_mode = not fast_mode

        if not paused:
            for _ in range(4 if fast_mode else 1):
                sim.step()

        screen.fill((0, 0, 0))
        draw_terrain(screen, sim, tile_px)
        panel.draw(screen, sim.villages)

        snap = sim.stats.latest
        pop = int(snap.total_population) if snap else 0
        info = (
            f"Tick: {sim.tick}   Pop: {pop}   "
            f"Slow ticks: {sim.health.slow_ticks}   Errors: {sim.health.error_count}"
            f"{'   PAUSED (P)' if paused else ''}"
        )
        screen.blit(font.render(info, True, (255, 255, 255)), (world_px + 6, 10))
        pygame.display.flip()
        clock.tick(30 if not fast_mode else 120)

    pygame.quit()


__all__ = [
    "ResourceShortage",
    "VillageShortageInfo",
    "VillageStatusPanel",
    "analyze_village_shortages",
    "draw_terrain",
    "run_window",
    "summary_colour",
    "summary_lines",
]
