# demo_flow.py
from __future__ import annotations

import sys

from stepflow import ConsoleListener, Coordinator, CoordinatorConfig, Scenario, ShellExecutor, flow, group, step
from stepflow.ui.console import get_console


def demo():
    return flow(
        # 1) Root step: runs as soon as the flow starts
        step("prepare", "mkdir -p .stepflow/demo && echo ready > .stepflow/demo/state.txt"),

        # 2) Group: both checks run in parallel once prepare succeeded
        group(
            "checks",
            step("read-state", "cat .stepflow/demo/state.txt"),
            step("flaky", "echo 'simulated failure' && exit 1"),
            needs=["prepare"],
        ),

        # 3) Hard dependency on a failed group: skipped, never executed
        step("publish", "echo publishing", needs=["checks"]),

        # 4) Soft dependency: runs after checks whatever their outcome
        step("cleanup", "rm -rf .stepflow/demo", needs=["~checks"]),
    )


if __name__ == "__main__":
    config = CoordinatorConfig.from_env()
    pf = demo()
    get_console().print_run_started(scenario="demo", step_count=len(pf))
    coordinator = Coordinator(
        Scenario("demo", log_dir=".stepflow/logs"),
        pf,
        executor=ShellExecutor("."),
        listeners=[ConsoleListener()],
        config=config,
    )
    try:
        code = coordinator.run()
    except KeyboardInterrupt:
        get_console().print_info("\nInterrupted by user")
        coordinator.stop()
        code = 130
    get_console().print_exit_code(code)
    sys.exit(code)
