# Services package init
"""
StackIt Backend — Services Layer
==================================

What:  Business rules between the HTTP routes and the gateways.
How:   Services receive their gateways in the constructor and are wired up
       in stackit.dependencies; routes never talk to a gateway directly.

Service Inventory:
    - SessionCache:          signed-in users' profiles, explicit Session objects
    - AccountService:        register / login / logout / reset / admin users
    - QuestionComposer:      validate → upload → resolve tags → write question
    - QuestionFeed:          search / filter / sort / paginate all questions
    - QuestionDetailService: one question thread and its mutations
"""
