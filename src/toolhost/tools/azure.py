from __future__ import annotations

import json
import logging
import shlex
from typing import Any, Optional

from pydantic import Field

from ..content import InvocationResult
from ..elicitation import (
    Accepted,
    Cancelled,
    Choice,
    ChoiceField,
    Declined,
    ElicitationRequest,
    InvocationContext,
)
from ..errors import CapabilityError
from ..process import ProcessRunner
from ..registry import NoArguments, ToolArguments, ToolDescriptor, ToolRegistry

log = logging.getLogger(__name__)

_SWITCH_HINT = 'To switch: az account set --subscription "<subscription-id>"'


class AzureCliError(CapabilityError):
    pass


class AzureCli:
    """Runs ``az`` subcommands and parses their JSON output."""

    def __init__(
        self,
        runner: ProcessRunner,
        timeout_ms: int = 30_000,
        max_output_bytes: int = 1024 * 1024,
    ) -> None:
        self.runner = runner
        self.timeout_ms = timeout_ms
        self.max_output_bytes = max_output_bytes

    async def run_json(self, *args: str) -> Any:
        command = shlex.join(["az", *args, "--output", "json"])
        result = await self.runner.run(command, self.timeout_ms, self.max_output_bytes)
        if result.truncated:
            raise AzureCliError(f"Azure CLI output exceeded {self.max_output_bytes} bytes")
        if result.exit_code != 0:
            detail = result.stderr.strip() or result.stdout.strip() or f"exit {result.exit_code}"
            raise AzureCliError(f"Azure CLI error: {detail}")
        if result.stderr.strip():
            log.warning("az %s wrote to stderr: %s", args[0] if args else "", result.stderr.strip())
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise AzureCliError(f"Azure CLI returned invalid JSON: {exc}") from exc

    async def list_subscriptions(self) -> list[dict[str, Any]]:
        return await self.run_json("account", "list") or []

    async def show_subscription(self, subscription_id: str | None = None) -> dict[str, Any]:
        if subscription_id:
            return await self.run_json("account", "show", "--subscription", subscription_id)
        return await self.run_json("account", "show")

    async def list_resource_groups(self, subscription_id: str) -> list[dict[str, Any]]:
        return await self.run_json("group", "list", "--subscription", subscription_id) or []


class ResourceGroupArguments(ToolArguments):
    subscription_id: Optional[str] = Field(
        default=None,
        alias="subscriptionId",
        description="Azure subscription ID (will be elicited if not provided)",
    )


def format_subscriptions(subscriptions: list[dict[str, Any]]) -> str:
    lines = [f"Azure Subscriptions ({len(subscriptions)} found):", ""]
    for sub in subscriptions:
        marker = "[ACTIVE]" if sub.get("isDefault") else "        "
        lines.append(f"{marker} {sub.get('name')}")
        lines.append(f"    ID: {sub.get('id')}")
        lines.append(f"    State: {sub.get('state')}")
        lines.append(f"    Tenant: {sub.get('tenantId')}")
        lines.append("")
    current = next((sub for sub in subscriptions if sub.get("isDefault")), None)
    if current:
        lines.append(f"Current Active Subscription: {current.get('name')}")
        lines.append(_SWITCH_HINT)
    return "\n".join(lines)


def format_subscription(sub: dict[str, Any]) -> str:
    user = (sub.get("user") or {}).get("name") or "N/A"
    return "\n".join(
        [
            "Current Azure Subscription:",
            "",
            f"Name: {sub.get('name')}",
            f"ID: {sub.get('id')}",
            f"Tenant: {sub.get('tenantId')}",
            f"User: {user}",
            f"Environment: {sub.get('environmentName')}",
            f"State: {sub.get('state')}",
            f"Default: {'Yes' if sub.get('isDefault') else 'No'}",
            "",
            _SWITCH_HINT,
        ]
    )


def format_resource_groups(groups: list[dict[str, Any]], subscription: dict[str, Any], subscription_id: str) -> str:
    lines = [f'Resource Groups in "{subscription.get("name")}" ({len(groups)} found):', ""]
    for group in groups:
        tags = group.get("tags") or {}
        state = (group.get("properties") or {}).get("provisioningState") or "Unknown"
        lines.append(group.get("name", "?"))
        lines.append(f"    Location: {group.get('location') or 'Unknown'}")
        lines.append(f"    State: {state}")
        lines.append(f"    Tags: {len(tags)} tag{'' if len(tags) == 1 else 's'}")
        if tags:
            shown = ", ".join(f"{k}={v}" for k, v in list(tags.items())[:3])
            lines.append(f"    {shown}{'...' if len(tags) > 3 else ''}")
        lines.append("")
    lines.append(f"Subscription: {subscription.get('name')}")
    lines.append(f"Subscription ID: {subscription_id}")
    return "\n".join(lines)


def subscription_choices(subscriptions: list[dict[str, Any]]) -> tuple[Choice, ...]:
    return tuple(
        Choice(
            value=str(sub.get("id")),
            label=f"{sub.get('name')}{' (ACTIVE)' if sub.get('isDefault') else ''}",
        )
        for sub in subscriptions
    )


def register(registry: ToolRegistry, cli: AzureCli) -> None:
    async def list_subscriptions(args: NoArguments, ctx: InvocationContext) -> InvocationResult:
        subscriptions = await cli.list_subscriptions()
        if not subscriptions:
            return InvocationResult.error("No Azure subscriptions found. Please run 'az login' first.")
        return InvocationResult.text(format_subscriptions(subscriptions))

    async def current_subscription(args: NoArguments, ctx: InvocationContext) -> str:
        return format_subscription(await cli.show_subscription())

    async def list_resource_groups(args: ResourceGroupArguments, ctx: InvocationContext) -> InvocationResult:
        subscription_id = args.subscription_id
        if not subscription_id:
            subscriptions = await cli.list_subscriptions()
            if not subscriptions:
                return InvocationResult.error("No Azure subscriptions found. Please run 'az login' first.")
            outcome = await ctx.elicit(
                ElicitationRequest(
                    message="Please select an Azure subscription to list resource groups from:",
                    field=ChoiceField(
                        name="subscriptionId",
                        title="Azure Subscription",
                        description="Select the subscription to use",
                        choices=subscription_choices(subscriptions),
                    ),
                )
            )
            if isinstance(outcome, Cancelled):
                return InvocationResult.text("Operation cancelled by user.")
            if isinstance(outcome, Declined):
                return InvocationResult.text("User declined to provide subscription information.")
            assert isinstance(outcome, Accepted)
            subscription_id = str(outcome.data["subscriptionId"])

        groups = await cli.list_resource_groups(subscription_id)
        if not groups:
            return InvocationResult.text(
                "No resource groups found in the selected subscription.\n\n"
                "Create one at: https://portal.azure.com"
            )
        subscription = await cli.show_subscription(subscription_id)
        return InvocationResult.text(format_resource_groups(groups, subscription, subscription_id))

    registry.register(
        ToolDescriptor(
            "listAzureSubscriptions",
            "List Azure Subscriptions",
            "List all Azure subscriptions available to the current user",
        ),
        list_subscriptions,
    )
    registry.register(
        ToolDescriptor(
            "getCurrentAzureSubscription",
            "Get Current Azure Subscription",
            "Get details about the currently active Azure subscription",
        ),
        current_subscription,
    )
    registry.register(
        ToolDescriptor(
            "listAzureResourceGroups",
            "List Azure Resource Groups",
            "List resource groups in a selected Azure subscription, asking the client to pick one if needed",
            ResourceGroupArguments,
        ),
        list_resource_groups,
    )
