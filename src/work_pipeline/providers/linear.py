"""Linear issue tracker provider over the GraphQL API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from work_pipeline.agents.models import WorkItem
from work_pipeline.providers.base import BoardInfo, ProviderError

logger = logging.getLogger(__name__)

LINEAR_API_URL = "https://api.linear.app/graphql"
LINEAR_SOURCE = "Linear"
DEFAULT_TIMEOUT_SECONDS = 30.0
DESCRIPTION_MAX_CHARS = 500

_ISSUE_FIELDS = """
  id identifier title description priority url
  state { name }
  team { id name }
  labels { nodes { name } }
"""

_ASSIGNED_ISSUES_QUERY = (
    """
query AssignedIssues($filter: IssueFilter) {
  viewer {
    assignedIssues(filter: $filter, first: 50) {
      nodes {"""
    + _ISSUE_FIELDS
    + """}
    }
  }
}
"""
)

_CREATE_ISSUE_MUTATION = (
    """
mutation CreateIssue($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue {"""
    + _ISSUE_FIELDS
    + """}
  }
}
"""
)

_ISSUE_TEAM_QUERY = """
query IssueTeam($id: String!) {
  issue(id: $id) { id team { id } }
}
"""

_WORKFLOW_STATE_QUERY = """
query WorkflowState($teamId: ID!, $type: String!) {
  workflowStates(filter: { team: { id: { eq: $teamId } }, type: { eq: $type } }, first: 1) {
    nodes { id name }
  }
}
"""

_UPDATE_STATE_MUTATION = """
mutation MoveIssue($id: String!, $stateId: String!) {
  issueUpdate(id: $id, input: { stateId: $stateId }) { success }
}
"""

_TEAMS_QUERY = """
query Teams {
  teams { nodes { id name } }
}
"""

_PRIORITY_LABELS = {1: "Urgent", 2: "High", 3: "Medium", 4: "Low"}
_SHAPE_ERRORS = (KeyError, TypeError, AttributeError)


class LinearProvider:
    """Fetches issues assigned to the API key owner and moves them across workflow states."""

    name = LINEAR_SOURCE

    def __init__(
        self,
        api_key: str,
        *,
        team_id: str | None = None,
        api_url: str = LINEAR_API_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.team_id = team_id
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Authorization": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    def fetch_items(self) -> list[WorkItem]:
        issue_filter: dict[str, Any] = {
            "state": {"type": {"nin": ["completed", "canceled"]}},
        }
        if self.team_id:
            issue_filter["team"] = {"id": {"eq": self.team_id}}
        data = self._graphql(_ASSIGNED_ISSUES_QUERY, {"filter": issue_filter})
        try:
            return [_to_work_item(node) for node in data["viewer"]["assignedIssues"]["nodes"]]
        except _SHAPE_ERRORS as error:
            raise self._unexpected_shape("assigned issues", error) from error

    def create_item(self, title: str, description: str | None = None) -> WorkItem | None:
        if not self.team_id:
            return None
        payload: dict[str, Any] = {"teamId": self.team_id, "title": title}
        if description:
            payload["description"] = description
        data = self._graphql(_CREATE_ISSUE_MUTATION, {"input": payload})
        try:
            created = data["issueCreate"]
            if not created.get("success") or not created.get("issue"):
                raise ProviderError(self.name, f"Issue creation rejected for {title!r}")
            return _to_work_item(created["issue"])
        except _SHAPE_ERRORS as error:
            raise self._unexpected_shape("issue creation", error) from error

    def move_to_in_progress(self, source_id: str) -> None:
        self._move_to_state_type(source_id, "started")

    def move_to_done(self, source_id: str) -> None:
        self._move_to_state_type(source_id, "completed")

    def list_boards(self) -> list[BoardInfo]:
        data = self._graphql(_TEAMS_QUERY, {})
        try:
            return [
                BoardInfo(id=node["id"], name=node["name"], source=self.name)
                for node in data["teams"]["nodes"]
            ]
        except _SHAPE_ERRORS as error:
            raise self._unexpected_shape("teams", error) from error

    def set_board_filter(self, board_id: str) -> None:
        self.team_id = board_id

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> LinearProvider:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _move_to_state_type(self, source_id: str, state_type: str) -> None:
        try:
            issue = self._graphql(_ISSUE_TEAM_QUERY, {"id": source_id})["issue"]
            if not issue or not issue.get("team"):
                raise ProviderError(self.name, f"Issue {source_id} not found")
            states = self._graphql(
                _WORKFLOW_STATE_QUERY,
                {"teamId": issue["team"]["id"], "type": state_type},
            )["workflowStates"]["nodes"]
            if not states:
                raise ProviderError(
                    self.name,
                    f"No {state_type} workflow state for issue {source_id}",
                )
            result = self._graphql(
                _UPDATE_STATE_MUTATION,
                {"id": issue["id"], "stateId": states[0]["id"]},
            )
            if not result["issueUpdate"]["success"]:
                raise ProviderError(
                    self.name,
                    f"Failed to move {source_id} to {states[0]['name']}",
                )
        except _SHAPE_ERRORS as error:
            raise self._unexpected_shape(f"moving {source_id}", error) from error

    def _unexpected_shape(self, context: str, error: Exception) -> ProviderError:
        logger.warning("Unexpected Linear response for %s: %r", context, error)
        return ProviderError(self.name, f"unexpected response shape for {context}: {error!r}")

    def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(
                self.api_url,
                json={"query": query, "variables": variables},
            )
        except httpx.TimeoutException as error:
            logger.warning("Timeout calling Linear API %s", self.api_url)
            raise ProviderError(self.name, "request timed out") from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error calling Linear API: %s", error)
            raise ProviderError(self.name, str(error)) from error

        if not response.is_success:
            raise ProviderError(
                self.name,
                f"API error: {response.status_code} {response.reason_phrase}",
            )
        try:
            body = response.json()
        except ValueError as error:
            raise ProviderError(self.name, "response is not valid JSON") from error
        if not isinstance(body, dict):
            raise ProviderError(self.name, "response is not a JSON object")
        if body.get("errors"):
            messages = "; ".join(str(item.get("message", item)) for item in body["errors"])
            raise ProviderError(self.name, messages)
        data = body.get("data")
        if data is None:
            raise ProviderError(self.name, "no data in response")
        return data


def _to_work_item(node: dict[str, Any]) -> WorkItem:
    description = node.get("description")
    labels = node.get("labels") or {}
    state = node.get("state") or {}
    team = node.get("team") or {}
    return WorkItem(
        id=node["identifier"],
        source_id=node.get("id"),
        title=node["title"],
        description=description[:DESCRIPTION_MAX_CHARS] if description else None,
        status=state.get("name"),
        priority=_PRIORITY_LABELS.get(node.get("priority")),
        team=team.get("name"),
        url=node.get("url"),
        labels=tuple(label["name"] for label in labels.get("nodes", [])),
        source=LINEAR_SOURCE,
    )
