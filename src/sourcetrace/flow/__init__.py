from sourcetrace.flow.flow import Flow, FlowResult
from sourcetrace.flow.pipe import GroupBuilder, Pipe

__all__ = ["Flow", "FlowResult", "GroupBuilder", "Pipe"]
