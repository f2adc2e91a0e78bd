"""
Task runner for Browser Copilot.

Picks the control loop for a task once, from the capability matrix and
the configured override, and drives it to completion.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import async_playwright

from .adapters import GoogleComputerUseClient
from .agent import AgentCallbacks, BrowserAgent
from .approver import Approver
from .bridge import ExecutionBridge, PlaywrightBridge, PlaywrightVisualSurface, VisualSurface
from .config import AgentConfig
from .llm_client import LLMClient
from .logger import RunLogger
from .providers import CapabilityMatrix
from .types import AgentMode, VisualEvent
from .visual_agent import ComputerUseClient, VisualControlLoop


logger = logging.getLogger(__name__)

LOOP_CHOICES = ("auto", "structural", "visual")


def choose_loop(config: AgentConfig, matrix: CapabilityMatrix) -> AgentMode:
    """Select the control loop for a task.

    Args:
        config: Agent configuration (provider and `loop` override)
        matrix: Capability matrix

    Returns:
        AgentMode.VISUAL or AgentMode.STRUCTURAL

    Raises:
        ValueError: If the visual loop is forced on a provider without it
    """
    if config.loop == "structural":
        return AgentMode.STRUCTURAL
    if config.loop == "visual":
        if matrix.select_loop(config.provider) != AgentMode.VISUAL:
            raise ValueError(f"Provider '{config.provider}' does not support the visual loop")
        return AgentMode.VISUAL
    if config.loop != "auto":
        raise ValueError(f"Unknown loop '{config.loop}', expected one of {', '.join(LOOP_CHOICES)}")
    return matrix.select_loop(config.provider)


@asynccontextmanager
async def open_browser(config: AgentConfig) -> AsyncIterator[tuple[PlaywrightBridge, PlaywrightVisualSurface]]:
    """Launch Chromium and yield the bridge and visual surface for its page."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless)
        try:
            context = await browser.new_context(
                viewport={"width": config.viewport_width, "height": config.viewport_height},
            )
            context.set_default_timeout(config.action_timeout)
            page = await context.new_page()
            if config.start_url:
                await page.goto(config.start_url, wait_until="domcontentloaded")
            yield (
                PlaywrightBridge(context, page, action_timeout=config.action_timeout),
                PlaywrightVisualSurface(page, action_timeout=config.action_timeout),
            )
        finally:
            await browser.close()


async def run_task(
    task: str,
    config: AgentConfig,
    bridge: ExecutionBridge,
    surface: Optional[VisualSurface] = None,
    approver: Optional[Approver] = None,
    callbacks: Optional[AgentCallbacks] = None,
    on_event: Optional[Callable[[VisualEvent], None]] = None,
    matrix: Optional[CapabilityMatrix] = None,
    run_logger: Optional[RunLogger] = None,
    llm_client: Optional[LLMClient] = None,
    computer_use_client: Optional[ComputerUseClient] = None,
) -> str:
    """Run one task with the loop its provider supports.

    Args:
        task: Natural-language task
        config: Agent configuration
        bridge: Execution bridge for the structural loop
        surface: Visual surface for the visual loop
        approver: Confirmation channel for gated actions
        callbacks: Structural-loop progress hooks
        on_event: Receives every visual-loop event
        matrix: Capability matrix (defaults to the static table)
        run_logger: Optional run logger
        llm_client: Pre-built chat client for the structural loop
        computer_use_client: Pre-built client for the visual loop

    Returns:
        The final text of the run
    """
    matrix = matrix or CapabilityMatrix()
    mode = choose_loop(config, matrix)
    provider_config = config.provider_config
    logger.info("Running task with %s loop on %s", mode.value, provider_config.provider.value)

    if mode == AgentMode.VISUAL:
        if surface is None:
            raise ValueError("The visual loop needs a visual surface")
        client = computer_use_client or GoogleComputerUseClient(
            provider_config, timeout=config.request_timeout_s, max_retries=config.max_retries
        )
        output = ""
        try:
            loop = VisualControlLoop(client, surface, config)
            async for event in loop.stream(task):
                if run_logger:
                    run_logger.log_visual_event(event)
                if on_event:
                    on_event(event)
                if event.type == "complete":
                    output = event.content
        finally:
            if computer_use_client is None:
                await client.close()
        return output

    client = llm_client or LLMClient(
        provider_config, timeout=config.request_timeout_s, max_retries=config.max_retries
    )
    try:
        agent = BrowserAgent(
            client,
            bridge,
            provider_config.provider.value,
            config=config,
            matrix=matrix,
            approver=approver,
            callbacks=callbacks,
            run_logger=run_logger,
        )
        return await agent.run(task)
    finally:
        if llm_client is None:
            await client.close()
