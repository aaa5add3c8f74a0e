from .controller import DeploymentController
from .datastore import DataStore
from .deployment import Deployment
from .tools import BoshDeployTool, ComposeDeployTool, DeployTool, make_deploy_tool

__all__ = [
    "BoshDeployTool",
    "ComposeDeployTool",
    "DataStore",
    "Deployment",
    "DeployTool",
    "DeploymentController",
    "make_deploy_tool",
]
