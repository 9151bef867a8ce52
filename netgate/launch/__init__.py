"""Launch context parsing and role selection."""

from .role_selector import LaunchContext, Role, RoleSelector, parse_launch_args, select_role

__all__ = ["LaunchContext", "Role", "RoleSelector", "parse_launch_args", "select_role"]
