"""
                        Services Module

Contains the engines behind the assistant's tool calls and their
collaborators. Collaborators with more than one backend (menu catalog,
knowledge base) follow the base/implementation/factory layout; the engines
themselves have a single implementation and take a session factory.

Services:
    - permissions: role -> capability gateway
    - counters: daily order number allocator
    - tables: table occupancy state machine
    - orders: order lifecycle, pricing and tax
    - conversations: sessions, message log and daily quota
    - menu: menu catalog and menu tools
    - knowledge: knowledge-base search interface
    - reporting: summaries, inventory and customer reads
    - tools: tool catalog and dispatcher
"""
