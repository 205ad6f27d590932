"""Agent pool: registry, activity trail, dispatch and the coordinator loop.

Four named agents each own one git worktree next to the main checkout. Work
items from the tracker providers are paired with free agents, a coding engine
subprocess runs in the agent's worktree, and its exit status flows back to the
coordinator as an action on a single queue.
"""
