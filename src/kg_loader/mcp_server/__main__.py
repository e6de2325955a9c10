from kg_loader.mcp_server.server import main

main()
