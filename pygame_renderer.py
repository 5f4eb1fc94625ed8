#!/usr/bin/env python3
"""
Pygame playback viewer for snake episodes.

Features:
- Steps a champion policy or a recorded replay at a fixed frame delay
- Heading-aware head, faded body, fruit marker
- Stats panel with tick, fruits, length, last action and death cause

Controls:
- SPACE: Pause/Resume
- N: Single step while paused
- R: Restart the episode
- G: Toggle grid
- +/-: Adjust speed
- ESC: Quit
"""

import time
from collections import deque

import numpy as np
import pygame

from game import Action, Direction

# =============================================================================
# CONSTANTS
# =============================================================================
BOARD_PIXELS = 640
PANEL_WIDTH = 260
HEADER_HEIGHT = 40
MAX_SPEED = 10

# UI Colors
COLOR_BG = (20, 20, 20)
COLOR_TEXT = (220, 220, 220)
COLOR_GRID = (60, 60, 60)
COLOR_PANEL = (30, 30, 30)
COLOR_HEAD = (80, 255, 120)
COLOR_BODY = (40, 170, 80)
COLOR_FRUIT = (230, 50, 50)
COLOR_DEAD = (255, 80, 80)

# Eye offsets (fractions of a cell) per heading
_EYES = {
    Direction.UP: ((0.3, 0.25), (0.7, 0.25)),
    Direction.RIGHT: ((0.75, 0.3), (0.75, 0.7)),
    Direction.DOWN: ((0.3, 0.75), (0.7, 0.75)),
    Direction.LEFT: ((0.25, 0.3), (0.25, 0.7)),
}


# =============================================================================
# PYGAME RENDERER
# =============================================================================

class PyGameRenderer:
    """Window around a pilot: any object with `game`, `title`, `step()` and `reset()`."""

    def __init__(self, pilot, delay_ms: int = 100):
        pygame.init()
        pygame.display.set_caption(f'Snake Neuroevolution - {pilot.title}')

        self.pilot = pilot
        game = pilot.game
        self.cell_size = max(4, BOARD_PIXELS // max(game.width, game.height))
        self.board_width = self.cell_size * game.width
        self.board_height = self.cell_size * game.height
        self.window_width = self.board_width + PANEL_WIDTH
        self.window_height = max(self.board_height + HEADER_HEIGHT, 360)

        self.window = pygame.display.set_mode((self.window_width, self.window_height))
        self.clock = pygame.time.Clock()
        self.fps_target = max(1, int(1000 / max(delay_ms, 1)))

        # Fonts
        self.font_large = pygame.font.Font(None, 32)
        self.font_medium = pygame.font.Font(None, 24)
        self.font_small = pygame.font.Font(None, 20)

        # View settings
        self.show_grid = True
        self.simulation_speed = 1  # Steps per frame
        self.paused = False
        self.last_action = None

        # Stats
        self.fps_history = deque(maxlen=30)

        # Pre-create surfaces for better performance
        self.board_surface = pygame.Surface((self.board_width, self.board_height))
        self.stats_surface = pygame.Surface((PANEL_WIDTH, self.window_height))

        print("\n" + "="*60)
        print("Pygame Renderer Started")
        print("="*60)
        print("\nControls:")
        print("  SPACE  : Pause/Resume")
        print("  N      : Single step (paused)")
        print("  R      : Restart episode")
        print("  G      : Toggle grid")
        print("  +/-    : Adjust speed")
        print("  ESC    : Quit")
        print("="*60 + "\n")

    def cell_rect(self, x, y, inset=0):
        """Screen rectangle of a board cell, relative to the board surface."""
        return pygame.Rect(x * self.cell_size + inset, y * self.cell_size + inset,
                           self.cell_size - 2 * inset, self.cell_size - 2 * inset)

    def render_board(self):
        """Render the snake, the fruit and the grid."""
        game = self.pilot.game
        self.board_surface.fill(COLOR_BG)

        if game.fruit is not None:
            center = self.cell_rect(*game.fruit).center
            pygame.draw.circle(self.board_surface, COLOR_FRUIT, center, max(2, self.cell_size // 2 - 2))

        # Body fades towards the tail
        body = list(game.body)
        n = len(body)
        for i in range(n - 1, 0, -1):
            shade = 1.0 - 0.5 * (i / n)
            color = tuple(int(c * shade) for c in COLOR_BODY)
            pygame.draw.rect(self.board_surface, color, self.cell_rect(*body[i], inset=1))

        head_color = COLOR_HEAD if game.alive else COLOR_DEAD
        hx, hy = body[0]
        if game.in_bounds((hx, hy)):
            pygame.draw.rect(self.board_surface, head_color, self.cell_rect(hx, hy, inset=1))
            for ex, ey in _EYES[game.direction]:
                eye = (int((hx + ex) * self.cell_size), int((hy + ey) * self.cell_size))
                pygame.draw.circle(self.board_surface, COLOR_BG, eye, max(1, self.cell_size // 10))

        if self.show_grid and self.cell_size > 6:
            self.render_grid()

        self.window.blit(self.board_surface, (0, HEADER_HEIGHT))

    def render_grid(self):
        """Render grid lines."""
        game = self.pilot.game
        for x in range(game.width + 1):
            sx = x * self.cell_size
            pygame.draw.line(self.board_surface, COLOR_GRID, (sx, 0), (sx, self.board_height), 1)
        for y in range(game.height + 1):
            sy = y * self.cell_size
            pygame.draw.line(self.board_surface, COLOR_GRID, (0, sy), (self.board_width, sy), 1)

    def render_stats_panel(self):
        """Render statistics panel on the right."""
        game = self.pilot.game
        self.stats_surface.fill(COLOR_PANEL)

        y_offset = 20
        title = self.font_large.render('Statistics', True, COLOR_TEXT)
        self.stats_surface.blit(title, (10, y_offset))
        y_offset += 50

        action = Action(self.last_action).name if self.last_action is not None else '---'
        stats_lines = [
            f"Tick: {game.tick} / {game.tick_cap}",
            f"Fruits: {game.fruits_eaten}",
            f"Length: {game.length}",
            f"Since fruit: {game.ticks_no_fruit}",
            f"Progress: {game.progress:.1f}",
            f"Action: {action}",
            f"",
            f"Grid: {game.width}x{game.height}",
            f"Seed: {self.pilot.seed}",
            f"",
            f"FPS: {int(np.mean(self.fps_history)) if self.fps_history else 0}",
            f"Speed: {self.simulation_speed}x",
            f"Grid lines: {'ON' if self.show_grid else 'OFF'}",
        ]

        for line in stats_lines:
            text = self.font_small.render(line, True, COLOR_TEXT)
            self.stats_surface.blit(text, (10, y_offset))
            y_offset += 22

        if not game.alive:
            y_offset += 20
            text = self.font_medium.render(f"DEAD: {game.death}", True, COLOR_DEAD)
            self.stats_surface.blit(text, (10, y_offset))

        self.window.blit(self.stats_surface, (self.board_width, 0))

    def render_header(self):
        """Render header bar."""
        header_rect = pygame.Rect(0, 0, self.board_width, HEADER_HEIGHT)
        pygame.draw.rect(self.window, COLOR_PANEL, header_rect)

        title = self.font_medium.render(self.pilot.title, True, COLOR_TEXT)
        self.window.blit(title, (10, 10))

        if not self.pilot.game.alive:
            status, status_color = "GAME OVER", COLOR_DEAD
        elif self.paused:
            status, status_color = "PAUSED", (255, 200, 0)
        else:
            status, status_color = "RUNNING", (0, 255, 100)
        status_text = self.font_medium.render(status, True, status_color)
        self.window.blit(status_text, (self.board_width - status_text.get_width() - 10, 10))

    def advance(self):
        for _ in range(self.simulation_speed):
            action = self.pilot.step()
            if action is None:
                break
            self.last_action = action

    def handle_events(self):
        """Handle pygame events."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False

            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    return False
                elif event.key == pygame.K_SPACE:
                    self.paused = not self.paused
                elif event.key == pygame.K_n and self.paused:
                    action = self.pilot.step()
                    if action is not None:
                        self.last_action = action
                elif event.key == pygame.K_r:
                    self.pilot.reset()
                    self.last_action = None
                    print("Episode restarted")
                elif event.key == pygame.K_g:
                    self.show_grid = not self.show_grid
                elif event.key == pygame.K_PLUS or event.key == pygame.K_EQUALS:
                    self.simulation_speed = min(MAX_SPEED, self.simulation_speed + 1)
                    print(f"Speed: {self.simulation_speed}x")
                elif event.key == pygame.K_MINUS:
                    self.simulation_speed = max(1, self.simulation_speed - 1)
                    print(f"Speed: {self.simulation_speed}x")

        return True

    def run(self):
        """Main rendering loop; the window stays open after the episode ends."""
        running = True
        reported = False

        while running:
            frame_start = time.time()
            running = self.handle_events()

            if not self.paused and self.pilot.game.alive:
                self.advance()
                reported = False

            if not self.pilot.game.alive and not reported:
                game = self.pilot.game
                print(f"Game over: {game.death} at tick {game.tick}, fruits {game.fruits_eaten}")
                reported = True

            self.window.fill(COLOR_BG)
            self.render_header()
            self.render_board()
            self.render_stats_panel()
            pygame.display.flip()

            frame_time = time.time() - frame_start
            self.fps_history.append(1.0 / frame_time if frame_time > 0 else 0)

            self.clock.tick(self.fps_target)

        pygame.quit()
