"""
SheLLM

ReAct агент, который через OpenAI-совместимую LLM читает инвентарь хостов
и выполняет на них команды по SSH.
"""

__version__ = "0.1.0"
