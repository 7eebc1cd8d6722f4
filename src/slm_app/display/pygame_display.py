"""Pygame window driving the SLM's video output."""

from __future__ import annotations

import os
from typing import Optional, Tuple

import numpy as np
import pygame


class SlmDisplay:
    """
    Presents one 8-bit grey frame at a time, pixel for pixel.
    """

    def __init__(self, title: str = "pew-pew") -> None:
        self.title = title
        self.screen: Optional[pygame.Surface] = None
        self._opened = False

    @property
    def size(self) -> Tuple[int, int]:
        if self.screen is None:
            raise RuntimeError("Display not opened")
        return self.screen.get_size()

    def open(self, size: Tuple[int, int], fullscreen: bool, screen_index: int | None = None) -> None:
        """Open a ``size`` = (width, height) window, borderless fullscreen on the SLM."""
        if self._opened:
            return
        if screen_index is not None:
            os.environ["SDL_VIDEO_FULLSCREEN_DISPLAY"] = str(screen_index)
        try:
            pygame.display.init()
            flags = pygame.FULLSCREEN | pygame.NOFRAME if fullscreen else 0
            self.screen = pygame.display.set_mode(tuple(size), flags)
        except pygame.error as exc:
            raise RuntimeError(f"Cannot open {size[0]}x{size[1]} SLM window: {exc}") from exc
        pygame.display.set_caption(self.title)
        pygame.mouse.set_visible(False)
        self._opened = True

    def show_gray(self, image: np.ndarray) -> None:
        if not self._opened or self.screen is None:
            raise RuntimeError("Display not opened")
        if image.ndim != 2:
            raise ValueError(f"Expected a 2D grey frame, got shape {image.shape}")
        rows, cols = image.shape
        if (cols, rows) != self.size:
            # Phase samples must land on exact pixels; scaling would corrupt them.
            raise ValueError(f"Frame is {cols}x{rows}, display is {self.size[0]}x{self.size[1]}")

        # surfarray indexes (x, y), numpy frames are (row, col).
        grey = np.ascontiguousarray(image.T, dtype=np.uint8)
        surf = pygame.surfarray.make_surface(np.stack((grey, grey, grey), axis=-1))
        self.screen.blit(surf, (0, 0))
        pygame.display.flip()

    def poll_quit(self) -> bool:
        """Take one pending window event; True for a close request or Escape."""
        if not self._opened:
            return False
        event = pygame.event.poll()
        if event.type == pygame.QUIT:
            return True
        return event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE

    def close(self) -> None:
        if not self._opened:
            return
        pygame.display.quit()
        self._opened = False
        self.screen = None
