"""
Network integrations: upstream LLM providers and the relay client
"""
