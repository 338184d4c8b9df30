"""
Formmaker Backend — API Routes Package
========================================

Route Inventory:
    - users.py:      /api/users                      signup, profile, favourites
    - teams.py:      /api/teams                      teams, members, team folders and forms
    - folders.py:    /api/folders                    personal folders, folder detail
    - forms.py:      /api/forms                      forms, trash, members, availability, placement
    - responses.py:  /api/forms/{id}/responses       submissions and response management
    - realtime.py:   /ws                             WebSocket rooms
    - health.py:     /health                         service health check

Routes are thin: they parse the request, resolve the acting user from the
X-User-ID header and call one service method. Permission checks live in the
services.
"""
