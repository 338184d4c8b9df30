"""
Formmaker Backend — Services Layer
====================================

What:  Business rules between the routes (HTTP) and the database.
How:   Services are plain objects built once in `formmaker.container` and
       receive the request's AsyncSession on every call. Each operation
       checks the caller's permissions itself before it mutates anything.

Service Inventory:
    - PermissionStore:     permission maps ↔ permission_grants rows
    - MembershipService:   team membership propagation engine
    - UserService:         signup, lookup, favourite forms
    - TeamService:         team lifecycle, invitations, member changes
    - FolderService:       personal and team folders
    - FormService:         form lifecycle, trash, members, availability
    - PlacementService:    favourites, folder and team moves
    - ResponseService:     submissions, filtering, deletion
    - Outbox:              post-commit delivery of emails and real-time events
    - MailService:         HTTP mail API client
    - RealtimeHub:         WebSocket rooms
"""
