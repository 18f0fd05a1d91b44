"""
tools: remote tool invocation against the upstream automation service.

Usage:
    from tools.invoker import ToolInvoker

    invoker = ToolInvoker(registry)
    result = await invoker.call(session_id, ip, "check_signin",
                                {"signin_id": sid}, timeout=6000)
"""
